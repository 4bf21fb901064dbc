import os
import tempfile
import unittest

from configobj import ConfigObjError
from hamcrest import assert_that, is_, calling, raises, has_entries

from wabridge.config.config import config_filename, config_flavor, load_config_file_base, load_config, \
    map_os_name, apply_conf
from wabridge.support.retry_strategy import RetryPolicy

config_name = 'config_test'
directory = os.path.dirname(__file__)


class ConfigTestCase(unittest.TestCase):

    def test_config_file_not_found(self):
        assert_that(calling(load_config_file_base).with_args('blah'), raises(IOError))

    def test_config_file_invalid_schema(self):
        assert_that(calling(load_config).with_args('config_test_invalid', directory, environ={}),
                    raises(ConfigObjError, "the config file config_test_invalid failed validation: server.port"))

    def test_config_file_invalid_syntax(self):
        assert_that(calling(load_config_file_base).with_args(os.path.join(directory, 'config_test_invalid_syntax.cfg')),
                    raises(ConfigObjError, "Section too nested at line 1. at .*config_test_invalid_syntax.cfg"))

    def test_can_retrieve_config_file(self):
        file = config_filename(config_flavor(config_name, "default"), directory)
        assert_that(os.path.exists(file), is_(True), "expected config path %s to exist" % file)

    def test_defaults_and_layers(self):
        config = load_config(config_name, directory, environ={})
        assert_that(config['server'], has_entries(host='example.org', port=3001))
        assert_that(config['retry'], has_entries(max_attempts=5, base_delay=2.5))
        assert_that(config['socket']['browser'], is_(['a', 'b', 'c']))

    def test_extra_file_overrides_defaults(self):
        config = load_config(config_name, directory, os.path.join(directory, 'config_test_extra.cfg'), environ={})
        assert_that(config['retry'], has_entries(max_attempts=7, base_delay=2.5))

    def test_extra_file_must_exist(self):
        assert_that(calling(load_config).with_args(config_name, directory, 'no-such-file.cfg', environ={}),
                    raises(IOError))

    def test_environment_overrides_files(self):
        config = load_config(config_name, directory, environ={'PORT': '8080', 'HOST': '', 'UNRELATED': 'x'})
        assert_that(config['server'], has_entries(host='example.org', port=8080))

    def test_environment_is_validated(self):
        assert_that(calling(load_config).with_args(config_name, directory, environ={'PORT': '0'}),
                    raises(ConfigObjError, "server.port"))

    def test_packaged_configuration(self):
        config = load_config('bridge', environ={'API_SECRET': 's3cret', 'CREDENTIAL_STORE_URL': 'http://store'})
        assert_that(config['server'], has_entries(api_secret='s3cret'))
        assert_that(config['credentials'], has_entries(store_url='http://store', sync_delay=2.0))
        assert_that(config['retry']['auth_rejected_codes'], is_([405, 500]))
        assert_that(config['socket']['factory'], is_('wabridge.support.fakes:FakeSocket'))

    def test_map_os_name(self):
        assert_that(map_os_name('Windows'), is_('windows'))
        assert_that(map_os_name('Darwin'), is_('osx'))
        assert_that(map_os_name('darwin'), is_('osx'))

    def test_apply_conf(self):
        policy = apply_conf({'max_attempts': 3, 'base_delay': 1.5, 'reconnect_delay': 9}, RetryPolicy())
        assert_that(policy.max_attempts, is_(3))
        assert_that(policy.base_delay, is_(1.5))
        assert_that(hasattr(policy, 'reconnect_delay'), is_(False))


class HomeOverrideTest(unittest.TestCase):

    def setUp(self):
        self.home = tempfile.mkdtemp()
        self.previous = os.environ.get('HOME')
        os.environ['HOME'] = self.home

    def tearDown(self):
        if self.previous is None:
            del os.environ['HOME']
        else:
            os.environ['HOME'] = self.previous
        for name in os.listdir(self.home):
            os.remove(os.path.join(self.home, name))
        os.rmdir(self.home)

    def test_user_file_overrides_defaults(self):
        with open(os.path.join(self.home, config_name + '.cfg'), 'w') as f:
            f.write('[retry]\nbase_delay = 9\n')
        config = load_config(config_name, directory, environ={})
        assert_that(config['retry']['base_delay'], is_(9.0))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
