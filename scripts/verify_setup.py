"""Verify that the setup is correct before running the monitor."""
import os
import sys
import psycopg2
from gh_monitor.config import (
    get_connection_string,
    load_environment,
    token_from_gh_cli,
)

load_environment()


def check_github_token():
    """Check that a GitHub token is available from the environment or the gh CLI."""
    print("Checking GitHub token...")

    if os.getenv("GITHUB_TOKEN"):
        token = os.getenv("GITHUB_TOKEN")
        source = "GITHUB_TOKEN"
    else:
        token = token_from_gh_cli()
        source = "gh auth token"

    if not token:
        print("❌ No token: set GITHUB_TOKEN or run 'gh auth login'")
        return False

    print(f"✅ Token found via {source}")
    print(f"   Token prefix: {token[:10]}...")
    return True


def check_database():
    """Check PostgreSQL connection and the tracked_repositories table."""
    print("\nChecking database...")

    try:
        conn = psycopg2.connect(get_connection_string())
    except Exception as e:
        print(f"❌ Failed to connect to PostgreSQL: {e}")
        return False

    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = 'tracked_repositories'
        """)

        if cursor.fetchone():
            cursor.execute("SELECT COUNT(*) FROM tracked_repositories")
            count = cursor.fetchone()[0]
            print("✅ Database schema exists")
            print(f"   Tracked repositories: {count}")
            result = True
        else:
            print("❌ Database schema not found. Run 'python setup_postgres.py' first.")
            result = False

        cursor.close()
        return result
    finally:
        conn.close()


def main():
    """Run all verification checks."""
    print("=" * 60)
    print("Repository Monitor - Setup Verification")
    print("=" * 60)

    checks = [
        ("GitHub Token", check_github_token),
        ("Database", check_database),
    ]

    results = {}
    for name, check_func in checks:
        try:
            results[name] = check_func()
        except Exception as e:
            print(f"❌ {name} check failed with exception: {e}")
            results[name] = False

    print("\n" + "=" * 60)
    print("Verification Summary")
    print("=" * 60)

    for name, passed in results.items():
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"{status}: {name}")

    if all(results.values()):
        print("\n✅ All checks passed! Ready to run the monitor.")
        print("\nNext steps:")
        print("  python monitor.py owner/name")
        sys.exit(0)
    else:
        print("\n❌ Some checks failed. Please fix the issues above.")
        sys.exit(1)


if __name__ == "__main__":
    main()
