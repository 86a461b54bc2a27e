import asyncio
from dotenv import load_dotenv

load_dotenv()

from app.utils.startup import system_initializer  # noqa: E402


async def main():
    await system_initializer.initialize()
    print("Database initialized: tables, default superadmin and site config are in place.")


if __name__ == "__main__":
    print("Initializing database and creating default admin user...")
    asyncio.run(main())
