import os

os.environ.setdefault("GROWTH_LOAD_DOTENV", "0")
for _name in ("GROWTH_DATABASE_URL", "GROWTH_REST_URL", "GROWTH_REST_API_KEY"):
    os.environ.pop(_name, None)
