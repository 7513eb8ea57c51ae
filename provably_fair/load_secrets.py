import os
import pathlib
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT", "5432")
db_name = os.getenv("DB_NAME")

if os.getenv("DATABASE_URL"):
    database_url = os.getenv("DATABASE_URL")
elif host:
    database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}"
else:
    sqlite_path = pathlib.Path(__file__).parents[1] / "provably_fair.sqlite3"
    database_url = f"sqlite+aiosqlite:///{sqlite_path}"

admin_username = os.getenv("ADMIN_USERNAME", "admin")
admin_password = os.getenv("ADMIN_PASSWORD")

house_edge = float(os.getenv("HOUSE_EDGE", "0.01"))
max_crash_multiplier = float(os.getenv("MAX_CRASH_MULTIPLIER", "1000.00"))
client_seed_max_length = int(os.getenv("CLIENT_SEED_MAX_LENGTH", "64"))
seed_rotation_hours = float(os.getenv("SEED_ROTATION_HOURS", "24"))
crate_catalog_path = os.getenv("CRATE_CATALOG_PATH")
log_level = os.getenv("LOG_LEVEL", "INFO")

if __name__ == "__main__":
    print(database_url, admin_username, house_edge, max_crash_multiplier, seed_rotation_hours)
