from typing import Dict

from jsonschema import Draft7Validator, FormatChecker

from .constants import IFNAME_MAX_LEN, TARGET_PREFIX_MAX_LEN

SCHEMA = {
    "description": "Interfaces managed by the router",
    "type": "object",
    "properties": {
        "interfaces": {
            "type": "array",
            "items": {"$ref": "#/interface"},
            "minItems": 1,
            "maxItems": 10 ** (IFNAME_MAX_LEN - TARGET_PREFIX_MAX_LEN),
        },
        "target_prefix": {
            "type": "string",
            "description": "Prefix of the virtual targets names (e.g. ifb)",
            "maxLength": TARGET_PREFIX_MAX_LEN,
            "format": "ifname",
        },
        "ip_forward": {
            "type": "boolean",
            "description": "Enable IPv4 forwarding before provisioning",
        },
        "parallel": {
            "type": "boolean",
            "description": "Provision the interfaces concurrently",
        },
    },
    "additionalProperties": False,
    "required": ["interfaces"],
    "interface": {
        "title": "Physical interface",
        "type": "object",
        "properties": {
            "name": {"type": "string", "format": "ifname"},
            "role": {
                "type": "string",
                "description": "Descriptive only (e.g. wan-a-facing)",
            },
        },
        "additionalProperties": False,
        "required": ["name"],
    },
}

RouterFormatChecker = FormatChecker()


@RouterFormatChecker.checks("ifname")
def is_valid_ifname(instance) -> bool:
    """What the kernel accepts as a device name."""
    if not isinstance(instance, str):
        return False
    if not 0 < len(instance) <= IFNAME_MAX_LEN:
        return False
    if instance in (".", ".."):
        return False
    return not any(c == "/" or c == ":" or c.isspace() for c in instance)


def RouterValidator(schema: Dict):
    return Draft7Validator(schema, format_checker=RouterFormatChecker)
