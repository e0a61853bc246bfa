"""
Bootstrap seed script: creates the first super_admin account.

Run from backend/ against the configured DATABASE_URL:
    python seed_super_admin.py --email root@example.com --name "Root Admin"

The password is read from --password or prompted for. Running it again with an
email that already exists is a no-op.
"""
import argparse
import getpass
import sys

from coralguard_admin.api.deps import get_diagnostics, get_password_hasher
from coralguard_admin.config import settings
from coralguard_admin.database import Base, SessionLocal, engine
from coralguard_admin.errors import AppError
from coralguard_admin.services.admin_accounts import AdminAccountService
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.permission_engine import PermissionEngine

import coralguard_admin.models  # noqa: F401


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the first CoralGuard super_admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Super Admin")
    parser.add_argument("--password", help="Prompted for when omitted")
    args = parser.parse_args(argv)

    password = args.password or getpass.getpass("Password: ")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        service = AdminAccountService(
            db,
            get_password_hasher(),
            AuditTrail(db, get_diagnostics()),
            PermissionEngine(),
            id_prefix=settings.ADMIN_ID_PREFIX,
            password_min_length=settings.ADMIN_PASSWORD_MIN_LENGTH,
        )
        account = service.seed_super_admin(args.email, password, args.name)
    except AppError as exc:
        print(f"  ERROR {exc.code}: {exc.message}")
        return 1
    finally:
        db.close()

    print(f"  ✓ super_admin {account.email}  {account.admin_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
