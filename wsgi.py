from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root so workers started elsewhere find it
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()

from app import create_app  # noqa: E402
from models import check_database_connection  # noqa: E402

app = create_app()

if __name__ == "__main__":
    check_database_connection()
    app.run(host="127.0.0.1", port=5050, debug=True)
