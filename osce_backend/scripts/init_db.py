"""
Script para inicializar la base de datos

Uso:
    python -m osce_backend.scripts.init_db
    python -m osce_backend.scripts.init_db --admin-email admin@hospital.org --admin-password secreto
    python -m osce_backend.scripts.init_db --normalize-options
"""
import argparse
import logging

from ..core.logging_config import setup_logging
from ..core.security import get_password_hash
from ..database.config import get_db_config
from ..database.repositories import UserRepository
from ..database.transaction import transaction
from ..models.enums import UserRole
from ..services.exam_composition import ExamCompositionService

logger = logging.getLogger(__name__)


def init_db(admin_email: str = None, admin_password: str = None, normalize_options: bool = False) -> None:
    """Crea las tablas y, opcionalmente, un administrador y la migración de opciones"""
    config = get_db_config()
    print("Creating database tables...")
    config.create_all()
    print("✓ Tables created successfully!")

    db = config.session()
    try:
        if admin_email:
            users = UserRepository(db)
            if users.exists_by_email(admin_email):
                print(f"• Admin user {admin_email} already exists")
            else:
                with transaction(db, "Create admin user"):
                    users.create(
                        name="Administrador",
                        email=admin_email,
                        hashed_password=get_password_hash(admin_password),
                        role=UserRole.ADMIN.value,
                    )
                print(f"✓ Admin user {admin_email} created")

        if normalize_options:
            migrated = ExamCompositionService(db).normalize_legacy_options()
            print(f"✓ Legacy options normalized for {migrated} questions")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the OSCE exam database")
    parser.add_argument("--admin-email", help="Create an admin user with this email")
    parser.add_argument("--admin-password", help="Password for the admin user")
    parser.add_argument(
        "--normalize-options",
        action="store_true",
        help="Move embedded legacy options into option rows",
    )
    args = parser.parse_args()

    if args.admin_email and not args.admin_password:
        parser.error("--admin-password is required with --admin-email")

    setup_logging()
    init_db(args.admin_email, args.admin_password, args.normalize_options)
