import json
import logging
import os


logger = logging.getLogger(__name__)


class BackendError(Exception):
    pass


class BackendKeyError(BackendError, KeyError):
    pass


class Undefined:
    pass


class ValueSource:
    """
    A small string-to-string store.  ``load_string``/``store_string`` are
    what the login code uses to keep the "remember me" token between runs.
    """

    def __getitem__(self, item):
        raise NotImplementedError

    def __setitem__(self, key, value):
        raise NotImplementedError

    def __delitem__(self, key):
        raise NotImplementedError

    def get(self, k, default=None):
        try:
            value = self[k]
        except BackendKeyError:
            value = default

        return value

    def load_string(self, key):
        value = self.get(key, None)

        return value

    def store_string(self, key, value):
        if value is None:
            try:
                del self[key]
            except BackendKeyError:
                pass

        else:
            self[key] = value


class MemoryStore(ValueSource):

    def __init__(self, values=None):
        self._values = dict(values or {})

    def __getitem__(self, item):
        try:
            value = self._values[item]
        except KeyError:
            raise BackendKeyError(item)

        return value

    def __setitem__(self, key, value):
        self._values[key] = value

    def __delitem__(self, key):
        try:
            del self._values[key]
        except KeyError:
            raise BackendKeyError(key)


class JsonConfigurationFile(ValueSource):

    def __init__(
            self,
            path_environment_variable,
            default_path,
            operating_system=os,
            open_strategy=open
    ):
        """

        :param str path_environment_variable:
        :param str default_path:
        :param os operating_system:
        :param open open_strategy:
        """
        self._path_environment_variable = str(path_environment_variable).upper()
        self._default_path = str(default_path)
        self._operating_system = operating_system
        self._open_strategy = open_strategy

    @property
    def path(self):
        path_from_environment = self._operating_system.environ.get(
            self._path_environment_variable,
            None
        )

        if path_from_environment:
            path = path_from_environment
        else:
            path = self._default_path

        return self._operating_system.path.expanduser(path)

    def _load(self):
        try:
            with self._open_strategy(self.path, 'r') as configuration_file:
                configuration = json.load(configuration_file)

        except (IOError, OSError):
            configuration = {}

        except ValueError as e:
            message = "Configuration file {path} is not valid JSON.".format(
                path=self.path
            )

            raise BackendError(message) from e

        return configuration

    def _dump(self, configuration):
        try:
            with self._open_strategy(self.path, 'w') as configuration_file:
                json.dump(
                    configuration,
                    configuration_file,
                    sort_keys=True,
                    indent=4
                )

        except (IOError, OSError) as e:
            message = "Could not write configuration file {path}.".format(
                path=self.path
            )

            raise BackendError(message) from e

        logger.debug("wrote configuration file %s", self.path)

    def __setitem__(self, key, value):
        configuration = self._load()
        configuration[key] = value
        self._dump(configuration)

    def __delitem__(self, key):
        configuration = self._load()

        if key not in configuration:
            raise BackendKeyError(key)

        del configuration[key]
        self._dump(configuration)

    def __getitem__(self, item):
        configuration = self._load()

        try:
            value = configuration[item]
        except KeyError:
            raise BackendKeyError(item)

        return value


class Arguments(ValueSource):

    def __init__(self, arguments):
        self._arguments = arguments

    def __getitem__(self, item):
        value = None

        if hasattr(self._arguments, item):
            value = getattr(self._arguments, item)

        if value is None:
            raise BackendKeyError(item)

        return value

    def __setitem__(self, key, value):
        raise BackendError('Cannot set value.')

    def __delitem__(self, key):
        raise BackendError('Cannot delete value.')


class SecretValue:

    def __init__(self, value_name, sources):
        """

        :param str value_name:
        :param list[ValueSource] sources:
        """

        self._value_name = str(value_name)
        self._sources = sources

    def retrieve_value(self, default=Undefined):
        value = Undefined

        for single_source in self._sources:
            value = single_source.get(self._value_name, Undefined)

            if value is not Undefined:
                break

        if value is Undefined:
            value = default

        if value is Undefined:
            message = "No sources have value: {name}.".format(
                name=self._value_name
            )

            raise BackendError(message)

        return value
