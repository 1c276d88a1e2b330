"""Configuration management for the LMS video upload CLI."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from common.constants import DEFAULT_CLIENT_CHUNK_SIZE_BYTES, DEFAULT_MAX_UPLOAD_SIZE_BYTES, DEFAULT_SERVER_PORT


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "server_host": os.environ.get("VIDEO_SERVER_HOST", "localhost"),
        "server_port": int(os.environ.get("VIDEO_SERVER_PORT", str(DEFAULT_SERVER_PORT))),
        "timeout": 30,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
        "chunk_size": DEFAULT_CLIENT_CHUNK_SIZE_BYTES,
        "max_file_size": DEFAULT_MAX_UPLOAD_SIZE_BYTES,
        "use_sessions": True,
    }

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.lmsvideo/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        A corrupt file is backed up to config.json.bak and defaults are used.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.lmsvideo' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, OSError):
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError:
                    pass
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except OSError:
                pass
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except OSError:
            pass

    def get_api_key(self) -> Optional[str]:
        """
        Get stored API key.

        Returns:
            API key string or None if not set
        """
        return self.data.get('api_key')

    def set_api_key(self, key: str) -> None:
        """Set API key and save to file."""
        self.data['api_key'] = key
        self.save()

    def get_base_url(self) -> str:
        """
        Get upload server base URL.

        Returns:
            Base URL string (e.g., "http://localhost:3000")
        """
        host = self.data.get('server_host', 'localhost')
        port = self.data.get('server_port', DEFAULT_SERVER_PORT)
        return f"http://{host}:{port}"

    def get_timeout(self) -> int:
        """Get per-request timeout in seconds."""
        return self.data.get('timeout', 30)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }

    def get_chunk_size(self) -> int:
        """Get chunk size in bytes."""
        return int(self.data.get('chunk_size', DEFAULT_CLIENT_CHUNK_SIZE_BYTES))

    def get_max_file_size(self) -> int:
        """Get the largest file the client will try to upload, in bytes."""
        return int(self.data.get('max_file_size', DEFAULT_MAX_UPLOAD_SIZE_BYTES))

    def use_sessions(self) -> bool:
        """Whether uploads open a server-side session first."""
        return bool(self.data.get('use_sessions', True))
