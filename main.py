"""
ArchGen - streaming architecture-diagram agent
Main entry point for the server
"""
from dotenv import load_dotenv

# OPENAI_API_KEY for development; must load before settings are read
load_dotenv()

from archgen.server.main import main  # noqa: E402


if __name__ == "__main__":
    main()
