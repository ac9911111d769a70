from dotenv import load_dotenv
import os

load_dotenv()  # Carrega variáveis do .env

DATABASE_URL = os.getenv("DATABASE_URL")
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ADMIN_ROLE = os.getenv("ADMIN_ROLE", "admin")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

NOTIFY_MODE = os.getenv("NOTIFY_MODE", "sync")
NOTIFICATIONS_LIST_LIMIT = int(os.getenv("NOTIFICATIONS_LIST_LIMIT", 200))

PUSH_PROVIDER = os.getenv("PUSH_PROVIDER", "log")
FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID")
# arquivo JSON da conta de servico; o access token OAuth2 e renovado sozinho
FCM_CREDENTIALS_FILE = os.getenv("FCM_CREDENTIALS_FILE") or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", 5))
PUSH_TOTAL_TIMEOUT_SECONDS = float(os.getenv("PUSH_TOTAL_TIMEOUT_SECONDS", 10))

def parse_cors_origins(value: str):
    if not value:
        return []
    if value.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]
