"""Create the push subscription table in the timetable database.

The timetable table itself belongs to the main API; only the table this
service writes to is created here. Existing tables are left untouched.
"""

import asyncio
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


async def create_subscription_table() -> None:
  """Create `notification_subscriptions` if it does not exist yet."""
  # Import after path setup so the script works when run directly.
  from timetable_notify.core.database import Base, dispose_engine, get_db_engine
  from timetable_notify.schema.push_subscriptions import WebPushSubscription

  engine = get_db_engine()
  if engine is None:
    print("Error: NOTIFY_PG_DSN is not set.")
    sys.exit(1)

  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all, tables=[WebPushSubscription.__table__], checkfirst=True)
    print(f"Table '{WebPushSubscription.__tablename__}' is ready.")
  except Exception as e:
    print(f"Error creating subscription table: {e}")
    sys.exit(1)
  finally:
    await dispose_engine()


if __name__ == "__main__":
  if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
  asyncio.run(create_subscription_table())
