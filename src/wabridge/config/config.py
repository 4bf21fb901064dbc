import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# the directory holding the packaged schema and defaults
config_directory = os.path.dirname(__file__)

# environment variables that override a configured value, mapped to (section, key)
environment_overrides = {
    'HOST': ('server', 'host'),
    'PORT': ('server', 'port'),
    'API_SECRET': ('server', 'api_secret'),
    'SERVER_NAME': ('server', 'server_name'),
    'EDGE_FUNCTION_URL': ('processor', 'url'),
    'CREDENTIAL_STORE_URL': ('credentials', 'store_url'),
    'AUTH_DIR': ('credentials', 'directory'),
    'SOCKET_FACTORY': ('socket', 'factory'),
    'LOG_LEVEL': ('logging', 'level'),
}


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('bridge', 'default')
    'bridge.default'
    >>> config_flavor('bridge')
    'bridge'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    """
    Loads a specialization of a config file, named after the base followed by a period and the
    specialization. A missing file gives an empty configuration.
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def apply_environment(config: ConfigObj, environ):
    for variable, (section, key) in environment_overrides.items():
        value = environ.get(variable)
        if value:
            config.setdefault(section, {})[key] = value


def load_config(name, directory=config_directory, extra_file=None, environ=None):
    """
    Loads all the configuration that relates to the given name.
    Configurations are applied in this order, later ones taking precedence:
    - the default specialization
    - the platform specialization
    - the user override in the home directory
    - the extra file, if given. This file must exist.
    - the environment variables listed in `environment_overrides`
    The result is validated against the "schema" specialization, which also supplies the defaults
    for values not given.
    :param directory:   the location of the configuration files
    :param environ:     the environment, os.environ when not given
    """
    schema = config_filename(config_flavor(name, 'schema'), directory)
    config = ConfigObj(configspec=schema, interpolation='Template')
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(os.path.expanduser('~/' + name + config_extension), must_exist=False))
    if extra_file:
        config.merge(load_config_file_base(extra_file))
    apply_environment(config, os.environ if environ is None else environ)

    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        failures = []
        for sections, key, error in flatten_errors(config, result):
            location = '.'.join(sections + ([key] if key is not None else []))
            failures.append('%s: %s' % (location, error or 'missing'))
        raise ConfigObjError("the config file %s failed validation: %s" % (name, '; '.join(failures)))
    return config


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration object to a target object.
    It does this by iterating over the items in the configuration and setting any attributes with the same name.
    :return: the target
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)
    return target
