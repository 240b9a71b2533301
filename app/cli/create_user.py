"""
CLI tool to create user accounts, optionally with 2FA already set up.
Usage: python -m cli.create_user --username <username> --email <email> --password <password> [--totp | --hotp | --sms] [--admin]
"""

import asyncio
import argparse
import random
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from api.auth.service import AuthOrchestrator
from common.clock import utcnow
from twofactor.notifier import LogNotifier
from twofactor.service import TwoFactorService
from twofactor.validator import generate_current


async def create_user(username: str, email: str, password: str, method: str = None, admin: bool = False):
    """
    Create a new user account.

    Args:
        username: Username for the account
        email: E-mail address, also the label shown in authenticator apps
        password: Password for the account
        method: "totp", "hotp", "sms" or None to leave 2FA disabled
        admin: Give the account the admin role (needed for /api/metrics)
    """
    two_factor = TwoFactorService(rng=random.SystemRandom(), notifier=LogNotifier())
    auth = AuthOrchestrator(two_factor)

    try:
        user = await auth.register(username, email, password, ["voter", "admin"] if admin else ["voter"])
    except ValueError as e:
        print(f"❌ Error: {e}")
        return False

    print("\n" + "="*80)
    print("✅ User account created successfully!")
    print("="*80)
    print(f"\n👤 Username: {username}")
    print(f"📧 Email: {email}")

    if method == "sms":
        await two_factor.set_enabled(user.id, True)
        print("\n📨 2FA enabled with codes sent on every login")
    elif method in ("totp", "hotp"):
        enrollment = await two_factor.provision_secret(user.id, method)
        await two_factor.set_enabled(user.id, True)
        print(f"\n📱 {method.upper()} Secret (for Google Authenticator):\n")
        print(f"   {enrollment.secret}")
        print(f"\n🔗 URI (scan this as QR code):\n")
        print(f"   {enrollment.uri}")
        if method == "totp":
            print(f"\n🔢 Current code (compare with your app): {generate_current(enrollment.secret, utcnow())}")
    else:
        print("\n⚠️  2FA is disabled for this account")

    print("\n" + "="*80 + "\n")
    return True


def main():
    """Main entry point for the CLI tool."""
    parser = argparse.ArgumentParser(
        description="Create a user account for the election API"
    )
    parser.add_argument("--username", required=True, help="Username for the account")
    parser.add_argument("--email", required=True, help="E-mail address of the account")
    parser.add_argument("--password", required=True, help="Password for the account")
    parser.add_argument("--admin", action="store_true", help="Grant the admin role")
    two_factor = parser.add_mutually_exclusive_group()
    two_factor.add_argument("--totp", dest="method", action="store_const", const="totp", help="Set up a time based authenticator app")
    two_factor.add_argument("--hotp", dest="method", action="store_const", const="hotp", help="Set up a counter based authenticator app")
    two_factor.add_argument("--sms", dest="method", action="store_const", const="sms", help="Send codes on every login")

    args = parser.parse_args()

    if len(args.username) < 3:
        print("❌ Error: Username must be at least 3 characters long")
        sys.exit(1)

    if len(args.password) < 8:
        print("❌ Error: Password must be at least 8 characters long")
        sys.exit(1)

    success = asyncio.run(create_user(args.username, args.email, args.password, args.method, args.admin))

    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
