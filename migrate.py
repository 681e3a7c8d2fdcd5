"""
CLI для управления миграциями

Использование:
    python migrate.py migrate        # Применить все миграции
    python migrate.py migrate 2      # Применить до версии 2
    python migrate.py rollback 1     # Откатить до версии 1
    python migrate.py current        # Показать текущую версию
"""

import asyncio
import logging
import sys

from database.queries import Database

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)


def print_usage():
    """Print usage information"""
    print(__doc__)
    sys.exit(1)


async def run(argv) -> int:
    """Выполнить команду; возвращает код выхода"""
    if not argv:
        print_usage()

    manager = Database.migration_manager()
    command = argv[0].lower()

    try:
        if command == "migrate":
            version = int(argv[1]) if len(argv) > 1 else None
            current = await manager.migrate(version)
            print(f"\n✅ Migration completed! Current version: {current}")

        elif command == "rollback":
            if len(argv) < 2:
                print("❌ Error: rollback requires target version")
                print("Usage: python migrate.py rollback <version>")
                return 1

            current = await manager.rollback(int(argv[1]))
            print(f"\n✅ Rollback completed! Current version: {current}")

        elif command == "current":
            version = await manager.get_current_version()
            latest = manager.latest_version
            print(f"\n📊 Current database version: {version}")
            print(f"🎯 Latest available version: {latest}")

            if version < latest:
                print(f"\n⚠️  Database needs migration ({version} -> {latest})")
                print("Run: python migrate.py migrate")
            else:
                print("\n✅ Database is up to date!")

        else:
            print(f"❌ Unknown command: {command}")
            print_usage()

    except Exception as e:
        logging.error(f"❌ Migration failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(sys.argv[1:])))
