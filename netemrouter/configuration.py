import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import jsonschema
import yaml

from .constants import DEFAULT_TARGET_PREFIX
from .schema import SCHEMA, RouterValidator

logger = logging.getLogger(__name__)


class BaseConfiguration:
    """Base class for the configuration objects.

    Subclasses set the schema and, optionally, the validator to use.
    """

    _SCHEMA: Optional[Dict[Any, Any]] = None
    _VALIDATOR_FUNC: Optional[Callable] = None

    @classmethod
    def from_dictionary(cls, dictionary: Mapping, validate: bool = True):
        """Alternative constructor. Build the configuration from a
        dictionary."""
        raise NotImplementedError

    @classmethod
    def from_settings(cls, **kwargs):
        """Alternative constructor. Build the configuration from
        the kwargs."""
        self = cls()
        self.set(**kwargs)
        return self

    @classmethod
    def validate(cls, dictionary: Mapping, schema: Optional[Dict] = None):
        if schema is None:
            schema = cls._SCHEMA
        if cls._VALIDATOR_FUNC is None:
            jsonschema.validate(dictionary, schema)
        else:
            # pylint: disable-next=not-callable
            cls._VALIDATOR_FUNC(schema).validate(dictionary)

    def to_dict(self) -> Dict:
        return {}

    def finalize(self):
        d = self.to_dict()
        logger.debug(json.dumps(d, indent=4))
        self.validate(d)
        return self

    def set(self, **kwargs):
        for k, v in kwargs.items():
            setattr(self, k, v)
        return self

    def __repr__(self) -> str:
        r = f"Conf@{hex(id(self))}\n"
        r += json.dumps(self.to_dict(), indent=4)
        return r


class Configuration(BaseConfiguration):
    """The router configuration: an ordered list of interfaces.

    Examples:

        .. code-block:: yaml

            interfaces:
              - name: eth0
                role: wan-a-facing
              - name: eth1
                role: wan-b-facing
            target_prefix: ifb
            ip_forward: true
    """

    _SCHEMA = SCHEMA
    _VALIDATOR_FUNC = RouterValidator

    def __init__(self):
        self.interfaces: List[InterfaceConfiguration] = []
        self.target_prefix = DEFAULT_TARGET_PREFIX
        self.ip_forward = True
        self.parallel = False

    @classmethod
    def from_dictionary(cls, dictionary: Mapping, validate: bool = True):
        if validate:
            cls.validate(dictionary)
        self = cls()
        self.interfaces = [
            InterfaceConfiguration.from_dictionary(i) for i in dictionary["interfaces"]
        ]
        self.target_prefix = dictionary.get("target_prefix", DEFAULT_TARGET_PREFIX)
        self.ip_forward = dictionary.get("ip_forward", True)
        self.parallel = dictionary.get("parallel", False)

        self.finalize()
        return self

    @classmethod
    def from_file(cls, path: Union[Path, str], validate: bool = True):
        with open(path) as f:
            dictionary = yaml.safe_load(f)
        if dictionary is None:
            dictionary = {}
        return cls.from_dictionary(dictionary, validate=validate)

    def add_interface(self, name: str, role: str = ""):
        self.interfaces.append(InterfaceConfiguration(name=name, role=role))
        return self

    def to_dict(self) -> Dict:
        return {
            "interfaces": [i.to_dict() for i in self.interfaces],
            "target_prefix": self.target_prefix,
            "ip_forward": self.ip_forward,
            "parallel": self.parallel,
        }


class InterfaceConfiguration:
    def __init__(self, *, name=None, role=""):
        self.name = name
        self.role = role

    @classmethod
    def from_dictionary(cls, dictionary):
        return cls(name=dictionary["name"], role=dictionary.get("role", ""))

    def to_dict(self):
        d = dict(name=self.name)
        if self.role:
            d.update(role=self.role)
        return d
