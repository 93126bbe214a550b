import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# The base name of the connection configuration files
CONFIG_NAME = 'connection'

SPP_UUID = '00001101-0000-1000-8000-00805F9B34FB'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('connection', 'default')
    'connection.default'
    >>> config_flavor('connection')
    'connection'
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
    Loads a specialization of a config file, named after the base followed by a period and the specialization.
    A missing file loads as an empty configuration.
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), False)


def load_schema(name, directory) -> ConfigObj:
    """
    Loads the "schema" specialization of a config file, which describes the valid values and their defaults.
    Check expressions are kept as written rather than split into lists.
    """
    return ConfigObj(config_filename(config_flavor(name, 'schema'), directory), list_values=False, file_error=False)


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


def load_config(name, directory, configspec=None, user_directory=None) -> ConfigObj:
    """
        Loads all the configuration files that relate to the given name.
        Configurations are merged in this order, later ones overriding earlier ones:
        - the default specialization
        - the platform specialization
        - the user override, in the user's home directory
        - the base configuration
        The merged configuration is validated against the "schema" specialization, which also supplies
        the defaults.
    :param directory: the location of the configuration files
    :param configspec: the schema to validate against, when not the one in directory
    :param user_directory: where the user override is found, the home directory by default
    """
    user_directory = user_directory or os.path.expanduser('~')
    config = ConfigObj()
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(config_filename(name, user_directory), must_exist=False))
    config.merge(config_flavor_file(name, directory))

    config.configspec = configspec if configspec is not None else load_schema(name, directory)
    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration object to a target object.
    Only attributes the target already has are set.
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)


class ConnectionSettings:
    """
    The settings used to make and run a connection.

    :param service_uuid the service connected to first
    :param fallback_channel the channel connected to when the service connection fails
    :param read_size the largest number of bytes taken by one read
    :param service_channels maps service uuids to RFCOMM channel numbers
    :param baudrate the serial port speed, for links bound to a serial port
    """
    service_uuid = SPP_UUID
    fallback_channel = 1
    read_size = 1024
    baudrate = 9600

    def __init__(self, **kwargs):
        self.service_channels = {SPP_UUID: 1}
        for k, v in kwargs.items():
            if not hasattr(self, k):
                raise TypeError("unknown setting %s" % k)
            setattr(self, k, v)

    def __repr__(self):
        return "ConnectionSettings(service_uuid=%s, fallback_channel=%d, read_size=%d, baudrate=%d)" % \
               (self.service_uuid, self.fallback_channel, self.read_size, self.baudrate)


def package_directory():
    return os.path.dirname(__file__)


def load_settings(directory=None, name=CONFIG_NAME, user_directory=None) -> ConnectionSettings:
    """
    Loads the connection settings.
    :param directory: the directory containing the configuration files, this package's directory by default
    :param name: the base name of the configuration files
    :raises ConfigObjError: when a file cannot be parsed or a value is invalid
    """
    schema = load_schema(CONFIG_NAME, package_directory())
    conf = load_config(name, directory or package_directory(), schema, user_directory)
    settings = ConnectionSettings()
    apply_conf(conf['connection'], settings)
    settings.service_channels = {k.upper(): v for k, v in conf['service_channels'].items()}
    return settings
