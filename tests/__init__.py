"""Test package for kitchenintel-chat."""
from dotenv import find_dotenv, load_dotenv

# Optional: MONGODB_CONNECTION and friends for the MongoDB storage tests
load_dotenv(find_dotenv(usecwd=True))
