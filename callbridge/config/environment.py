import os
import sys
import yaml
from dotenv import load_dotenv

# Load .env file for secrets (Override ensures local .env takes precedence over shell vars)
load_dotenv(override=True)

class ConfigManager:
    _config = None

    @classmethod
    def _load_config(cls):
        if cls._config is None:
            base_path = os.path.dirname(__file__)
            config_path = os.path.join(base_path, "config.yml")
            try:
                with open(config_path, "r") as f:
                    content = f.read()
                    # Interpolate environment variables manually
                    for key, value in os.environ.items():
                        content = content.replace(f"${{{key}}}", value.strip())
                    cls._config = yaml.safe_load(content) or {}
            except FileNotFoundError:
                print("❌ Error: config.yml not found in callbridge/config/")
                sys.exit(1)
        return cls._config

    @classmethod
    def get(cls, path, default=None):
        """Retrieves a value from the config using dot notation (e.g. 'openai.voice_name')."""
        config = cls._load_config()
        keys = path.split(".")
        value = config
        for key in keys:
            if not isinstance(value, dict):
                return default
            value = value.get(key)
            if value is None:
                return default
        return value

    # --- Secrets (from .env) ---
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

    @property
    def AUTOMATION_WEBHOOK_URL(self):
        # Env var wins over config.yml
        env_url = os.getenv("AUTOMATION_WEBHOOK_URL")
        if env_url: return env_url.strip()
        return self.get("automation.webhook_url")

    @property
    def PORT(self):
        return int(os.getenv("PORT") or self.get("server.port", 5050))

    @classmethod
    def get_system_instruction(cls):
        """Loads the persona prompt from file."""
        try:
            base_path = os.path.dirname(__file__)
            file_path = os.path.join(base_path, "system_instruction.txt")
            with open(file_path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    @classmethod
    def validate(cls):
        """Validates that essential environment variables are set."""
        if not cls.OPENAI_API_KEY:
            print("❌ Error: Missing OPENAI_API_KEY. Please set it in the .env file.")
            sys.exit(1)

# Singleton Instance for easy import
config = ConfigManager()
