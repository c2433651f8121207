import argparse
import asyncio
from typing import Optional

from sqlalchemy.exc import IntegrityError

from fwhost.admin import add_vendor
from fwhost.config import Settings
from fwhost.database import create_tables, make_engine, make_sessionmaker


async def bootstrap(settings: Settings, master: Optional[str] = None, name: str = "Master"):
    engine = make_engine(settings.DATABASE_URL)
    try:
        await create_tables(engine)
        print("Tables created successfully!")
        if master:
            async with make_sessionmaker(engine)() as session:
                try:
                    await add_vendor(session, master, name, settings.SIGNING_CONTACT)
                    print(f"Master vendor {master} created")
                except IntegrityError:
                    print(f"Vendor {master} already exists")
    finally:
        await engine.dispose()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create tables and the master vendor")
    parser.add_argument("--master", help="guid of the master vendor to provision")
    parser.add_argument("--name", default="Master", help="display name of the master vendor")
    args = parser.parse_args(argv)
    asyncio.run(bootstrap(Settings(), args.master, args.name))


if __name__ == "__main__":
    main()
