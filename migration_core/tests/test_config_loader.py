"""
Unit tests for migration_core.config.loader module
Tests multi-format configuration loading (YAML + Python), env overrides and validation
"""
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

import yaml

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from migration_core.config.loader import ENV_OVERRIDES, load_config

VALID_CONFIG = {
    'gitlab': {
        'url': 'https://gitlab.example.com',
        'token': 'glpat-test-token'
    },
    'ado': {
        'url': 'https://dev.azure.com/org',
        'pat': 'test_pat'
    }
}


class TestConfigLoader(unittest.TestCase):
    """Test configuration loading functionality."""

    def setUp(self):
        """Create temporary directory for test configs and isolate the environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.original_dir = os.getcwd()
        os.chdir(self.temp_dir)

        self.env_patch = patch.dict(os.environ)
        self.env_patch.start()
        for name in list(ENV_OVERRIDES) + ['MIGRATION_SKIP_TLS_VERIFY']:
            os.environ.pop(name, None)

    def tearDown(self):
        """Clean up temporary files and restore directory."""
        self.env_patch.stop()
        os.chdir(self.original_dir)
        shutil.rmtree(self.temp_dir)

    def write_yaml(self, data, filename='config.yaml'):
        with open(filename, 'w') as f:
            yaml.dump(data, f)

    def test_load_yaml_config(self):
        """Test loading YAML configuration."""
        self.write_yaml(VALID_CONFIG)

        config = load_config()

        self.assertEqual(config['gitlab']['url'], 'https://gitlab.example.com')
        self.assertEqual(config['ado']['pat'], 'test_pat')

    def test_load_python_config(self):
        """Test loading Python module configuration with a CONFIG dict."""
        with open('config.py', 'w') as f:
            f.write("""
CONFIG = {
    'gitlab': {'url': 'https://gitlab.example.com', 'token': 'glpat-x'},
    'ado': {'url': 'https://dev.azure.com/org', 'pat': 'pat'}
}
""")

        config = load_config()

        self.assertEqual(config['gitlab']['token'], 'glpat-x')

    def test_load_python_attributes(self):
        """Test upper-case module attributes split into sections."""
        with open('config.py', 'w') as f:
            f.write("GITLAB_URL = 'https://gitlab.example.com'\n"
                    "GITLAB_TOKEN = 'glpat-x'\n"
                    "ADO_URL = 'https://dev.azure.com/org'\n"
                    "ADO_PAT = 'pat'\n"
                    "_PRIVATE = 'ignored'\n")

        config = load_config()

        self.assertEqual(config['gitlab'], {'url': 'https://gitlab.example.com', 'token': 'glpat-x'})
        self.assertEqual(config['ado']['pat'], 'pat')
        self.assertNotIn('_private', config)

    def test_auto_detection_yaml_priority(self):
        """Test that config.yaml has priority over config.py."""
        self.write_yaml({'source': 'yaml'})
        with open('config.py', 'w') as f:
            f.write("SOURCE = 'python'\n")

        config = load_config(validate=False)

        self.assertEqual(config['source'], 'yaml')

    def test_yml_extension(self):
        """Test loading a config file with a .yml extension."""
        self.write_yaml({'test': 'yml'}, 'config.yml')
        self.assertEqual(load_config(validate=False)['test'], 'yml')

    def test_load_custom_file(self):
        """Test loading a config file from an explicit path."""
        self.write_yaml({'test': 'value'}, 'test_config.yaml')
        self.assertEqual(load_config('test_config.yaml', validate=False)['test'], 'value')

    def test_file_not_found(self):
        """Test loading a config path that doesn't exist."""
        with self.assertRaises(FileNotFoundError):
            load_config('nonexistent.yaml', validate=False)

    def test_no_config_found(self):
        """Test loading when no config file can be found."""
        with self.assertRaises(FileNotFoundError):
            load_config(validate=False)

    def test_unsupported_format(self):
        """Test loading a config file with an unsupported extension."""
        with open('config.json', 'w') as f:
            f.write('{}')
        with self.assertRaises(ValueError):
            load_config('config.json', validate=False)

    def test_empty_config(self):
        """Test that an empty config file is rejected."""
        with open('config.yaml', 'w') as f:
            f.write('')
        with self.assertRaises(ValueError):
            load_config(validate=False)

    def test_shared_config_merged(self):
        """Test shared/config.yaml is deep-merged under the file config."""
        os.makedirs('shared')
        self.write_yaml({'gitlab': {'url': 'https://shared.example.com', 'verify_ssl': True},
                         'http': {'max_attempts': 5}},
                        os.path.join('shared', 'config.yaml'))
        self.write_yaml(VALID_CONFIG)

        config = load_config()

        self.assertEqual(config['gitlab']['url'], 'https://gitlab.example.com')
        self.assertTrue(config['gitlab']['verify_ssl'])
        self.assertEqual(config['http']['max_attempts'], 5)

    def test_environment_variable_override(self):
        """Test that environment variables override config values."""
        self.write_yaml(VALID_CONFIG)
        os.environ['GITLAB_TOKEN'] = 'glpat-from-env'
        os.environ['ADO_USERNAME'] = 'svc'
        os.environ['LOG_LEVEL'] = 'DEBUG'

        config = load_config()

        self.assertEqual(config['gitlab']['token'], 'glpat-from-env')
        self.assertEqual(config['ado']['username'], 'svc')
        self.assertEqual(config['logging']['level'], 'DEBUG')

    def test_skip_tls_verify_env(self):
        """Test the TLS skip flag read from the environment."""
        self.write_yaml(VALID_CONFIG)

        os.environ['MIGRATION_SKIP_TLS_VERIFY'] = 'yes'
        self.assertTrue(load_config()['http']['skip_tls_verify'])

        os.environ['MIGRATION_SKIP_TLS_VERIFY'] = '0'
        self.assertFalse(load_config()['http']['skip_tls_verify'])

    def test_validation_missing_fields(self):
        """Test validation reports every missing field."""
        self.write_yaml({'gitlab': {'url': 'https://gitlab.example.com'}})

        with self.assertRaises(ValueError) as ctx:
            load_config()

        message = str(ctx.exception)
        self.assertIn('gitlab.token', message)
        self.assertIn('ado.url', message)
        self.assertIn('ado.pat', message)

    def test_validation_http_settings(self):
        """Test validation of the http settings section."""
        data = dict(VALID_CONFIG, http={'max_attempts': -1, 'base_delay': 'slow'})
        self.write_yaml(data)

        with self.assertRaises(ValueError) as ctx:
            load_config()

        self.assertIn('http.max_attempts', str(ctx.exception))
        self.assertIn('http.base_delay', str(ctx.exception))

    def test_validation_skip(self):
        """Test loading with validation turned off."""
        self.write_yaml({'incomplete': 'config'})
        self.assertEqual(load_config(validate=False)['incomplete'], 'config')

    def test_verify_ssl_false_kept(self):
        """Test that verify_ssl false survives loading."""
        data = {'gitlab': dict(VALID_CONFIG['gitlab'], verify_ssl=False), 'ado': VALID_CONFIG['ado']}
        self.write_yaml(data)
        self.assertIs(load_config()['gitlab']['verify_ssl'], False)


if __name__ == '__main__':
    unittest.main()
