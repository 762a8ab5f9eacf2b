import os

from dotenv import load_dotenv

load_dotenv()

# PostgreSQL (districts table + has_role function)
DB_DSN = os.getenv("DB_DSN", "")

# Hosted auth service used to validate bearer tokens
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
AUTH_TIMEOUT_SECONDS = float(os.getenv("AUTH_TIMEOUT_SECONDS", "10"))

# Capability required to run an import
ADMIN_ROLE = os.getenv("ADMIN_ROLE", "system_admin")

# Import
IMPORT_BATCH_SIZE = int(os.getenv("IMPORT_BATCH_SIZE", "500"))

# Server
PORT = int(os.getenv("PORT", "8000"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
