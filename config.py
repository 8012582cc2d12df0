from datetime import timedelta

from starlette.config import Config


# Load environment variables from .env file
config = Config(".env")

# Mandatory: the process refuses to start without these
JWT_SECRET = config("JWT_SECRET")
GOOGLE_CLIENT_ID = config("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = config("GOOGLE_CLIENT_SECRET")

JWT_ALGORITHM = config("JWT_ALGORITHM", default="HS256")
SESSION_SECRET = config("SESSION_SECRET", default=JWT_SECRET)

MONGO_URI = config("MONGO_URI", default="mongodb://localhost:27017/auth")
MONGO_DB_NAME = config("MONGO_DB_NAME", default="auth")

CLIENT_URL = config("CLIENT_URL", default="http://localhost:5173")
OAUTH_FAILURE_REDIRECT = config("OAUTH_FAILURE_REDIRECT", default="/login/failed")

EMAIL_SENDER = config("EMAIL", default="")
EMAIL_PASSWORD = config("PASS", default="")
SMTP_HOST = config("SMTP_HOST", default="smtp.gmail.com")
SMTP_PORT = config("SMTP_PORT", cast=int, default=465)

GITHUB_CLIENT_ID = config("GITHUB_CLIENT_ID", default="")
GITHUB_CLIENT_SECRET = config("GITHUB_CLIENT_SECRET", default="")
FACEBOOK_APP_ID = config("FACEBOOK_APP_ID", default="")
FACEBOOK_APP_SECRET = config("FACEBOOK_APP_SECRET", default="")

NODE_ENV = config("NODE_ENV", default="development")
IS_PRODUCTION = NODE_ENV == "production"
LOG_LEVEL = config("LOG_LEVEL", default="INFO")

TOKEN_COOKIE_NAME = "token"
TOKEN_LIFETIME = timedelta(days=7)
VERIFICATION_CODE_LIFETIME = timedelta(hours=24)
RESET_TOKEN_LIFETIME = timedelta(hours=1)
OAUTH_STATE_LIFETIME = timedelta(minutes=10)
PASSWORD_HASH_ROUNDS = 10
