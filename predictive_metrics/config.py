import os
import configparser
from pathlib import Path

DEVELOPMENT_ENVIRONMENTS = ('development', 'dev', 'local')


class Config:
    """Configuration manager for the predictive metrics subsystem."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        self._config_path = Path(
            os.environ.get('PREDICTIVE_METRICS_CONFIG', str(Path('config') / 'settings.ini'))
        )
        self._config = configparser.ConfigParser(interpolation=None)

        self._load_defaults()

        # Values from the settings file override the defaults
        if self._config_path.exists():
            self._config.read(self._config_path)

        self._initialized = True

    def _load_defaults(self):
        """Populate the default configuration."""
        self._config['DATABASE'] = {
            'type': 'postgresql',
            'engine': 'postgresql+asyncpg',
            'host': 'localhost',
            'port': '5432',
            'database': 'predictive_metrics',
            'username': 'postgres',
            'password': 'postgres',
            'pool_size': '10',
            'max_overflow': '20',
            'pool_timeout': '30',
            'pool_recycle': '1800',
            'echo': 'False'
        }

        self._config['SUPABASE'] = {
            'url': '',
            'key': ''
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True',
            'file_output': 'False'
        }

        self._config['CACHE'] = {
            'staleness_window_hours': '24',
            'association_retention_days': '7'
        }

        self._config['INFERENCE'] = {
            'development_mode': 'False',
            'timeout_seconds': '30'
        }

        self._config['ANOMALY'] = {
            'confirmed_threshold': '0.8'
        }

    def _save_config(self):
        """Save configuration to file."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def set(self, section, key, value, persist=False):
        """Set configuration value.

        Args:
            section: Section name
            key: Option name
            value: New value (stored as string)
            persist: Write the settings file after the change
        """
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))
        if persist:
            self._save_config()

    @property
    def development_mode(self):
        """Whether synthetic data replaces the inference boundary.

        The runtime environment wins over the settings file so a developer can
        switch modes without editing configuration.
        """
        environment = os.environ.get('PREDICTIVE_METRICS_ENV', '').strip().lower()
        if environment:
            return environment in DEVELOPMENT_ENVIRONMENTS
        return self.get_boolean('INFERENCE', 'development_mode', False)

    @property
    def db_config(self):
        """Get database configuration."""
        return {
            'type': self.get('DATABASE', 'type', 'postgresql').split('#')[0].strip().lower(),
            'engine': self.get('DATABASE', 'engine', 'postgresql+asyncpg'),
            'host': self.get('DATABASE', 'host', 'localhost'),
            'port': self.get_int('DATABASE', 'port', 5432),
            'database': self.get('DATABASE', 'database', 'predictive_metrics'),
            'username': self.get('DATABASE', 'username', 'postgres'),
            'password': self.get('DATABASE', 'password', 'postgres'),
            'pool_size': self.get_int('DATABASE', 'pool_size', 10),
            'max_overflow': self.get_int('DATABASE', 'max_overflow', 20),
            'pool_timeout': self.get_int('DATABASE', 'pool_timeout', 30),
            'pool_recycle': self.get_int('DATABASE', 'pool_recycle', 1800),
            'echo': self.get_boolean('DATABASE', 'echo', False)
        }

    @property
    def supabase_config(self):
        """Get Supabase configuration, preferring environment variables."""
        if os.getenv('SUPABASE_URL') and os.getenv('SUPABASE_KEY'):
            return {
                'url': os.getenv('SUPABASE_URL'),
                'key': os.getenv('SUPABASE_KEY')
            }

        return {
            'url': self.get('SUPABASE', 'url', ''),
            'key': self.get('SUPABASE', 'key', '')
        }

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True),
            'file_output': self.get_boolean('LOGGING', 'file_output', False)
        }

    @property
    def prediction_settings(self):
        """Get orchestrator settings."""
        from predictive_metrics.schemas import PredictionSettings

        timeout = self.get_float('INFERENCE', 'timeout_seconds', 30.0)
        return PredictionSettings(
            development_mode=self.development_mode,
            staleness_window_hours=self.get_float('CACHE', 'staleness_window_hours', 24.0),
            inference_timeout_seconds=timeout if timeout and timeout > 0 else None,
            association_retention_days=self.get_int('CACHE', 'association_retention_days', 7),
            anomaly_confirmed_threshold=self.get_float('ANOMALY', 'confirmed_threshold', 0.8)
        )

# Global config instance
config = Config()
