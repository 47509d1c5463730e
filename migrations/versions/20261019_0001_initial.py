# migrations/versions/20261019_0001_initial.py
# Initial schema for the policy administration tables
from alembic import op

# Revision identifiers, used by Alembic.
revision = "20261019_0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    # Users (admin, employee, client)
    op.execute("""
    CREATE TABLE IF NOT EXISTS `users` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `name` VARCHAR(255) NOT NULL,
      `username` VARCHAR(100) NULL,
      `email` VARCHAR(191) NULL,
      `password_hash` VARCHAR(255) NOT NULL,
      `role` VARCHAR(20) NOT NULL DEFAULT 'client',
      `phone` VARCHAR(32) NULL,
      `is_active` TINYINT(1) NOT NULL DEFAULT 1,
      `last_login` DATETIME NULL,
      `created_at` DATETIME NOT NULL,
      PRIMARY KEY (`id`),
      UNIQUE KEY `ux_users_username` (`username`),
      UNIQUE KEY `ux_users_email` (`email`),
      KEY `ix_users_role` (`role`)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;
    """)

    # Policies
    op.execute("""
    CREATE TABLE IF NOT EXISTS `policies` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `policy_number` VARCHAR(50) NOT NULL,
      `user_id` INT NULL,
      `created_by` INT NULL,
      `holder_name` VARCHAR(255) NULL,
      `holder_phone` VARCHAR(32) NULL,
      `policy_type` VARCHAR(100) NOT NULL,
      `premium_amount` DECIMAL(10,2) NULL,
      `status` VARCHAR(20) NOT NULL DEFAULT 'pending',
      `start_date` DATE NULL,
      `payment_due_date` DATE NULL,
      `created_at` DATETIME NOT NULL,
      `deactivation_reason` TEXT NULL,
      `deactivated_at` DATETIME NULL,
      PRIMARY KEY (`id`),
      UNIQUE KEY `ux_policies_policy_number` (`policy_number`),
      KEY `ix_policies_user` (`user_id`),
      KEY `ix_policies_status` (`status`),
      CONSTRAINT `fk_policies_user` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`),
      CONSTRAINT `fk_policies_created_by` FOREIGN KEY (`created_by`) REFERENCES `users` (`id`)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;
    """)

    # Beneficiaries (owned by policy)
    op.execute("""
    CREATE TABLE IF NOT EXISTS `beneficiaries` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `policy_id` INT NOT NULL,
      `name` VARCHAR(255) NOT NULL,
      `relation` VARCHAR(100) NULL,
      `id_number` VARCHAR(50) NULL,
      PRIMARY KEY (`id`),
      KEY `ix_beneficiaries_policy` (`policy_id`),
      CONSTRAINT `fk_beneficiaries_policy` FOREIGN KEY (`policy_id`)
        REFERENCES `policies` (`id`) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;
    """)

    # Claims
    op.execute("""
    CREATE TABLE IF NOT EXISTS `claims` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `policy_id` INT NOT NULL,
      `reason` TEXT NOT NULL,
      `status` VARCHAR(20) NOT NULL DEFAULT 'pending',
      `submitted_by` INT NULL,
      `submitted_at` DATETIME NOT NULL,
      `decided_by` INT NULL,
      `decided_at` DATETIME NULL,
      PRIMARY KEY (`id`),
      KEY `ix_claims_policy_status` (`policy_id`, `status`),
      CONSTRAINT `fk_claims_policy` FOREIGN KEY (`policy_id`) REFERENCES `policies` (`id`),
      CONSTRAINT `fk_claims_submitted_by` FOREIGN KEY (`submitted_by`) REFERENCES `users` (`id`),
      CONSTRAINT `fk_claims_decided_by` FOREIGN KEY (`decided_by`) REFERENCES `users` (`id`)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;
    """)

    # Claim documents (one row per uploaded file, ordered)
    op.execute("""
    CREATE TABLE IF NOT EXISTS `claim_documents` (
      `id` INT NOT NULL AUTO_INCREMENT,
      `claim_id` INT NOT NULL,
      `position` INT NOT NULL,
      `original_name` VARCHAR(255) NULL,
      `stored_path` VARCHAR(500) NOT NULL,
      `content_type` VARCHAR(100) NULL,
      `size_bytes` INT NOT NULL DEFAULT 0,
      PRIMARY KEY (`id`),
      UNIQUE KEY `ux_claim_documents_position` (`claim_id`, `position`),
      CONSTRAINT `fk_claim_documents_claim` FOREIGN KEY (`claim_id`)
        REFERENCES `claims` (`id`) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;
    """)

def downgrade():
    op.execute("DROP TABLE IF EXISTS `claim_documents`;")
    op.execute("DROP TABLE IF EXISTS `claims`;")
    op.execute("DROP TABLE IF EXISTS `beneficiaries`;")
    op.execute("DROP TABLE IF EXISTS `policies`;")
    op.execute("DROP TABLE IF EXISTS `users`;")
