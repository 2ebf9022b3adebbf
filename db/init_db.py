"""
db/init_db.py
-------------
Creates the database schema (table + indexes) if it does not already exist
and inserts the default antennes when the table is empty.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Antennes table: contact/branch records, soft-deleted through `deleted`
CREATE TABLE IF NOT EXISTS antennes (
    id                                  SERIAL PRIMARY KEY,
    nom                                 VARCHAR(255),
    prenom                              VARCHAR(255) NOT NULL,
    civilite                            VARCHAR(50) NOT NULL,
    date_naissance                      DATE,
    tel_portable                        VARCHAR(50),
    tel_fixe                            VARCHAR(50),
    email                               VARCHAR(255),
    situation_professionnelle           VARCHAR(255),
    adresse                             TEXT,
    adresse_complementaire              TEXT,
    cp                                  VARCHAR(20),
    ville                               VARCHAR(255),
    pays                                VARCHAR(255),
    pays_id                             INTEGER,
    type_statut_id                      INTEGER,
    raison_sociale                      VARCHAR(255),
    siret                               VARCHAR(50),
    etat                                VARCHAR(20) NOT NULL DEFAULT 'actif' CHECK (etat IN ('actif', 'inactif')),
    type_profil_id                      INTEGER,
    antenne_principale                  BOOLEAN NOT NULL DEFAULT FALSE,
    bon_savoir                          TEXT,
    information_facturation             TEXT,
    iban                                VARCHAR(255),
    bic                                 VARCHAR(255),
    precisions_lieu                     TEXT,
    preferences_horaires_pickup_retrait TEXT,
    preferences_horaires_pickup_retour  TEXT,
    not_share_phone_number              BOOLEAN NOT NULL DEFAULT FALSE,
    deleted                             BOOLEAN NOT NULL DEFAULT FALSE,
    created_at                          TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at                          TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for the filtered listing
CREATE INDEX IF NOT EXISTS idx_antennes_etat ON antennes(etat);
CREATE INDEX IF NOT EXISTS idx_antennes_ville ON antennes(ville);
CREATE INDEX IF NOT EXISTS idx_antennes_deleted ON antennes(deleted);
"""

DEFAULT_DATA_SQL = """
INSERT INTO antennes
    (civilite, prenom, nom, email, tel_portable, ville, raison_sociale, siret, etat, antenne_principale)
VALUES
    ('M.', 'Jean', 'Dupont', 'jean.dupont@example.com', '0612345678', 'Paris', 'Dupont SARL', '12345678901234', 'actif', TRUE),
    ('Mme', 'Marie', 'Martin', 'marie.martin@example.com', '0698765432', 'Lyon', 'Martin & Co', '98765432109876', 'actif', TRUE),
    ('M.', 'Pierre', 'Bernard', 'pierre.bernard@example.com', '0611223344', 'Marseille', NULL, NULL, 'actif', FALSE),
    ('Mme', 'Sophie', 'Petit', 'sophie.petit@example.com', '0655667788', 'Bordeaux', 'Petit Services', '11223344556677', 'inactif', FALSE);
"""


def create_tables(seed: bool = True) -> None:
    """
    Execute the schema SQL and, if the table is empty, insert default data.
    Safe to call multiple times (uses IF NOT EXISTS).

    Args:
        seed: Insert the default antennes into an empty table.
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            if seed:
                cur.execute("SELECT COUNT(*) FROM antennes;")
                if cur.fetchone()[0] == 0:
                    logger.info("Inserting default antennes...")
                    cur.execute(DEFAULT_DATA_SQL)
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
