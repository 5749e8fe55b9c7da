"""
Create an admin account for the AdminGuard console.

Creates the tables if they do not exist yet, creates (or re-activates) the
admin, and can enroll TOTP straight away, printing the provisioning URI and
the one-time backup codes.

Usage:
    python create_admin.py admin@example.com --password 'S3cret!' [--role super_admin] [--enable-2fa]
"""
import argparse
import getpass
import sys

from sqlalchemy.exc import SQLAlchemyError

from adminguard import models  # noqa: F401  (registers tables on Base.metadata)
from adminguard.database import Base, engine, session_scope
from adminguard.errors import DependencyError
from adminguard.models.admin_user import VALID_ROLES
from adminguard.services.identity import IdentityStore
from adminguard.services.totp import TotpService
from adminguard.utils.auth import hash_backup_code, hash_password


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an AdminGuard admin account")
    parser.add_argument("email", help="Admin email address (used to sign in)")
    parser.add_argument("--password", help="Password; prompted for when omitted")
    parser.add_argument("--role", default="admin", choices=VALID_ROLES, help="Account role")
    parser.add_argument("--enable-2fa", action="store_true", help="Enroll TOTP and print the setup details")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("[ERROR] A password is required")
        return 1

    print("=" * 60)
    print("Creating AdminGuard admin")
    print("=" * 60)

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        print(f"[ERROR] Database unavailable: {e}")
        return 1

    try:
        with session_scope() as db:
            identities = IdentityStore(db)
            user = identities.get_by_email(args.email)
            if user:
                print(f"[WARN] {user.email} already exists. Updating password, role and re-activating...")
                user.password_hash = hash_password(password)
                user.role = args.role
                user.is_active = True
                db.commit()
            else:
                user = identities.create(args.email, password, role=args.role)
                print(f"[OK] Created {user.email} ({user.role})")

            if args.enable_2fa:
                totp = TotpService()
                enrollment = totp.generate(user.email)
                identities.begin_totp_enrollment(
                    user,
                    enrollment.secret,
                    [hash_backup_code(code) for code in enrollment.backup_codes],
                )
                identities.enable_totp(user)

                print("\nTwo-factor authentication enabled")
                print(f"   Provisioning URI: {enrollment.provisioning_uri}")
                print(f"   Manual entry key: {enrollment.manual_entry_key}")
                print("   Backup codes (shown once):")
                for code in enrollment.backup_codes:
                    print(f"     {code}")
    except (SQLAlchemyError, DependencyError) as e:
        print(f"[ERROR] {e}")
        return 1

    print("\n" + "=" * 60)
    print("ADMIN READY")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
