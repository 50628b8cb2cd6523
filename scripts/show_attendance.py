import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import select

script_dir = os.path.dirname(os.path.abspath(__file__))
if os.path.basename(script_dir) == 'scripts':
    project_root = os.path.dirname(script_dir)
else:
    project_root = script_dir

sys.path.append(project_root)
env_path = os.path.join(project_root, ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

# Disable the root logger and specific SQLAlchemy loggers
logging.basicConfig(level=logging.CRITICAL)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.dialects").setLevel(logging.WARNING)

from attendly.database import AsyncSessionLocal  # noqa: E402
from attendly.models.attendance import AttendanceRecord  # noqa: E402
from attendly.models.event import Event  # noqa: E402


async def show_attendance(event_id: str | None = None):
    print("\n" + "=" * 110)
    print(f" {'Time':<19} | {'Event':<20} | {'Name':<20} | {'Email':<28} | {'Status':<10}")
    print("=" * 110)

    try:
        async with AsyncSessionLocal() as session:
            query = (
                select(AttendanceRecord, Event.name)
                .join(Event, Event.id == AttendanceRecord.event_id)
                .order_by(AttendanceRecord.created_at.desc())
            )
            if event_id:
                query = query.where(AttendanceRecord.event_id == event_id)

            rows = (await session.execute(query)).all()

            if not rows:
                print(f" {'No records found.':<105}")
            for record, event_name in rows:
                time_str = record.created_at.strftime("%Y-%m-%d %H:%M:%S")
                print(
                    f" {time_str:<19} | {event_name[:20]:<20} | {record.attendee_name[:20]:<20} | "
                    f"{record.attendee_email[:28]:<28} | {record.status:<10}"
                )
                if record.suspicious_reason:
                    print(f" {'':<19}   -> {record.suspicious_reason}")

    except Exception as e:
        print(f"\n[!] Error fetching data: {e}")
        if "DATABASE_URL" in str(e):
            print("    Hint: Check your .env file location.")

    print("=" * 110 + "\n")


if __name__ == "__main__":
    try:
        asyncio.run(show_attendance(sys.argv[1] if len(sys.argv) > 1 else None))
    except KeyboardInterrupt:
        pass
