"""
Multi-format Configuration Loader
Supports YAML and Python module configs
Merges a shared base config and environment variable overrides
"""
import importlib.util
import os

import yaml

from migration_core.logging.logger import get_logger

logger = get_logger("config")

SHARED_CONFIG = os.path.join('shared', 'config.yaml')

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'GITLAB_URL': ('gitlab', 'url'),
    'GITLAB_TOKEN': ('gitlab', 'token'),
    'ADO_URL': ('ado', 'url'),
    'ADO_PAT': ('ado', 'pat'),
    'ADO_USERNAME': ('ado', 'username'),
    'LOG_LEVEL': ('logging', 'level'),
}

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


class ConfigLoader:
    """
    Multi-format configuration loader.

    Supports:
    - YAML files (config.yaml / config.yml)
    - Python modules (config.py with a CONFIG dict or GITLAB_*/ADO_* attributes)
    - Shared base configuration (shared/config.yaml)
    - Environment variable overrides
    - Optional validation
    """

    def __init__(self, config_path=None, validate=True):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file (auto-detected if None)
            validate: Validate configuration (default: True)
        """
        self.config_path = config_path
        self.validate = validate

    def load(self):
        """
        Load configuration.

        Order (later wins):
        1. shared/config.yaml (if exists)
        2. The config file itself
        3. Environment variables

        Returns:
            dict: Merged configuration dictionary

        Raises:
            FileNotFoundError: If config file not found
            ValueError: If validation fails
        """
        shared_config = self._load_shared_config()
        file_config = self._load_file_config()

        config = self._deep_merge(shared_config, file_config)
        config = self._merge_env_vars(config)
        config = self._resolve_paths(config)

        if self.validate:
            self._validate_config(config)

        return config

    def _load_shared_config(self):
        """
        Load shared/config.yaml from the working directory or its parent.

        Returns:
            dict: Shared configuration, or empty dict if not found
        """
        for candidate in (SHARED_CONFIG, os.path.join('..', SHARED_CONFIG)):
            if os.path.exists(candidate):
                logger.info(f"Loading shared config: {candidate}")
                with open(candidate, 'r', encoding='utf-8') as f:
                    return yaml.safe_load(f) or {}
        return {}

    def _load_file_config(self):
        if self.config_path is None:
            self.config_path = self._auto_detect_config()

        if self.config_path.endswith('.yaml') or self.config_path.endswith('.yml'):
            return self._load_yaml()
        if self.config_path.endswith('.py'):
            return self._load_python_module()
        raise ValueError(f"Unsupported config format: {self.config_path}")

    def _deep_merge(self, base, override):
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary (takes precedence)

        Returns:
            dict: Merged dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _auto_detect_config(self):
        """
        Auto-detect configuration file.

        Priority: config.yaml, config.yml, config.py

        Raises:
            FileNotFoundError: If no config file found
        """
        candidates = ['config.yaml', 'config.yml', 'config.py']

        for candidate in candidates:
            if os.path.exists(candidate):
                logger.info(f"Auto-detected config: {candidate}")
                return candidate

        raise FileNotFoundError(
            f"Configuration file not found. Tried: {', '.join(candidates)}\n"
            f"Please copy config.yaml.example to config.yaml and update with your settings."
        )

    def _load_yaml(self):
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                f"Please copy config.yaml.example to config.yaml and update with your settings."
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Configuration file is empty: {self.config_path}")
        if not isinstance(config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {self.config_path}")

        return config

    def _load_python_module(self):
        """
        Load Python module configuration.

        Either a CONFIG dict, or upper-case attributes split on the first
        underscore (GITLAB_URL -> gitlab.url, ADO_PAT -> ado.pat).
        """
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        spec = importlib.util.spec_from_file_location("config_module", self.config_path)
        config_module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(config_module)

        if hasattr(config_module, 'CONFIG'):
            return config_module.CONFIG

        config = {}
        for attr in dir(config_module):
            if not attr.isupper() or attr.startswith('_'):
                continue
            value = getattr(config_module, attr)
            if '_' in attr:
                section, key = attr.lower().split('_', 1)
                config.setdefault(section, {})[key] = value
            else:
                config[attr.lower()] = value

        return config

    def _resolve_paths(self, config):
        """
        Resolve relative CA bundle paths (verify_ssl) against the repository root.

        Args:
            config: Configuration dictionary

        Returns:
            dict: Configuration with resolved absolute paths
        """
        repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))

        for section in ('gitlab', 'ado'):
            settings = config.get(section)
            if not isinstance(settings, dict):
                continue
            verify_ssl = settings.get('verify_ssl')
            if isinstance(verify_ssl, str) and not os.path.isabs(verify_ssl):
                abs_path = os.path.join(repo_root, verify_ssl)
                if os.path.exists(abs_path):
                    settings['verify_ssl'] = abs_path
                    logger.info(f"Resolved {section} CA bundle path: {abs_path}")

        return config

    def _merge_env_vars(self, config):
        """
        Merge environment variables into configuration.

        Supported environment variables:
            - GITLAB_URL / GITLAB_TOKEN: GitLab server and personal access token
            - ADO_URL / ADO_PAT / ADO_USERNAME: Azure DevOps organization URL and PAT
            - MIGRATION_SKIP_TLS_VERIFY: Disable certificate verification (1/true/yes)
            - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        for env_name, (section, key) in ENV_OVERRIDES.items():
            if env_name in os.environ:
                config.setdefault(section, {})[key] = os.environ[env_name]

        if 'MIGRATION_SKIP_TLS_VERIFY' in os.environ:
            skip = os.environ['MIGRATION_SKIP_TLS_VERIFY'].strip().lower() in _TRUE_VALUES
            config.setdefault('http', {})['skip_tls_verify'] = skip

        return config

    def _validate_config(self, config):
        """
        Validate that required configuration fields exist.

        Raises:
            ValueError: If required fields are missing
        """
        errors = []

        gitlab = config.get('gitlab', {})
        if not gitlab.get('url'):
            errors.append("Missing 'gitlab.url' in config")
        if not gitlab.get('token'):
            errors.append("Missing 'gitlab.token' in config")

        ado = config.get('ado', {})
        if not ado.get('url'):
            errors.append("Missing 'ado.url' in config")
        if not ado.get('pat'):
            errors.append("Missing 'ado.pat' in config")

        http = config.get('http', {})
        max_attempts = http.get('max_attempts', 3)
        if not isinstance(max_attempts, int) or max_attempts < 0:
            errors.append("'http.max_attempts' must be a non-negative integer")
        base_delay = http.get('base_delay', 1.0)
        if not isinstance(base_delay, (int, float)) or base_delay < 0:
            errors.append("'http.base_delay' must be a non-negative number")

        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(f"  - {err}" for err in errors)
            raise ValueError(error_message)


def load_config(config_path=None, validate=True):
    """
    Load configuration (convenience function).

    Args:
        config_path: Path to config file (auto-detected if None)
        validate: Validate configuration (default: True)

    Returns:
        dict: Merged configuration dictionary
    """
    loader = ConfigLoader(config_path=config_path, validate=validate)
    return loader.load()
