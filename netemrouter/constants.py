# Handle of the ingress qdisc (the kernel always uses ffff: for it)
INGRESS_HANDLE = "ffff:"
INGRESS_KIND = "ingress"

# Virtual targets are Intermediate Functional Block devices
IFB_KIND = "ifb"
DEFAULT_TARGET_PREFIX = "ifb"

# Our redirect filters live in this pref range, see redirection.rule_pref
RULE_PREF_BASE = 0xC000
RULE_PREF_SPAN = 0x3FFF

# Linux IFNAMSIZ - 1
IFNAME_MAX_LEN = 15

IPV4_FORWARD_KEY = "net/ipv4/ip_forward"

# Room left for the index appended to the prefix (up to 999)
TARGET_PREFIX_MAX_LEN = IFNAME_MAX_LEN - 3
