import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

from hostlink.config.settings import TransportSettings

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

# The name of the packaged configuration and the section holding the transport settings
default_config_name = 'hostlink'
transport_section = 'transport'


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory, by default the directory of this module.
    """
    config_file = os.path.join(directory or os.path.dirname(__file__), name + config_extension)
    return config_file


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


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name.
    :param name:    The name of the base configuration
    :param subpart: The name of the specialization.
    :return: The ConfigObj for the configuration file.
    """
    configname = config_flavor(name, subpart)
    file = config_filename(configname, directory)
    config = load_config_file_base(file, False)
    return config


def config_schema_file(name, directory) -> ConfigObj:
    """
    Loads the "schema" specialization as a configspec, so that check arguments such as
    integer(min=0, default=100) are kept whole rather than split into lists.
    A missing schema gives an empty configspec.
    """
    file = config_filename(config_flavor(name, 'schema'), directory)
    if not os.path.exists(file):
        return ConfigObj()
    try:
        return ConfigObj(file, list_values=False, _inspec=True)
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


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


def user_config_file(name):
    return os.path.expanduser('~/' + name + config_extension)


def load_config(name, directory, schema=None):
    """
        Loads all the configuration files that relate to the given name.
        Configurations are merged in this order, later files overriding earlier ones:
        - the default specialization
        - the platform specialization
        - the user override
        - the base configuration
        The merged configuration is validated against the "schema" specialization.
    :param directory: the location of the configuration files
    :param schema: the configspec to validate against. Defaults to the schema file in directory.
    :return: the validated ConfigObj
    """
    local_config = config_flavor_file(name, directory)
    default_config = config_flavor_file(name, directory, 'default')
    platform_config = config_flavor_file(name, directory, os_name())
    user_config = load_config_file_base(user_config_file(name), must_exist=False)
    config = ConfigObj()
    config.merge(default_config)
    config.merge(platform_config)
    config.merge(user_config)
    config.merge(local_config)

    config.configspec = schema if schema is not None else config_schema_file(name, directory)
    validator = Validator()
    result = config.validate(validator, preserve_errors=True)
    if result is not True:
        errors = []
        for section_list, key, res in flatten_errors(config, result):
            location = '.'.join(section_list + [key]) if key is not None else '.'.join(section_list)
            errors.append('%s: %s' % (location, res if res is not False else 'missing'))
        raise ConfigObjError("the config file %s failed validation %s" % (name, ', '.join(errors)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:   An iterable that lists the names of the config to resolve
    :return: The configuration object identified by the path, or None
    """
    for p in path:    # lookup specific section
        conf = conf.get(p, None)
        if conf is None:
            return
    return conf


def settings_from_conf(conf: Section) -> TransportSettings:
    """
    Builds transport settings from a configuration section.
    It does this by iterating over the values in the configuration and keeping those with the name of a setting.
    Other keys are ignored. Values the schema did not convert are converted to the type of the setting.
    """
    settings = TransportSettings()
    values = {}
    for k in conf.scalars:
        if k not in settings.__dict__:
            continue
        value = conf[k]
        if isinstance(value, str):
            value = conf.as_bool(k) if isinstance(getattr(settings, k), bool) else conf.as_int(k)
        values[k] = value
    return settings.copy(**values)


def load_settings(directory=None, name=default_config_name, section=transport_section) -> TransportSettings:
    """
    Loads the transport settings from the layered configuration files.
    :param directory: the directory containing the configuration files. Defaults to the packaged defaults.
    :param name: the base name of the configuration files
    :param section: the dotted path of the section holding the settings
    :return: the TransportSettings
    """
    package_directory = os.path.dirname(__file__)
    directory = directory or package_directory
    schema = config_schema_file(name, directory)
    if not schema:
        schema = config_schema_file(default_config_name, package_directory)
    conf = load_config(name, directory, schema)
    found = fetch_conf_path(conf, section.split('.'))
    if found is None:
        logger.debug("no section %s in config %s, using defaults" % (section, name))
        return TransportSettings()
    return settings_from_conf(found)
