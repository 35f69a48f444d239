import re

# sacli commands
CMD_USER_PROP_GET = "UserPropGet"
CMD_USER_PROP_PUT = "UserPropPut"
CMD_USER_PROP_DEL_ALL = "UserPropDelAll"
CMD_SET_LOCAL_PASSWORD = "SetLocalPassword"
CMD_VPN_STATUS = "VPNStatus"

# Access Server user properties (values are always strings)
PROP_EMAIL = "prop_email"
PROP_DISPLAY_NAME = "prop_c_name"
PROP_SUPERUSER = "prop_superuser"

# Entries in UserPropGet output that are not real user accounts
PSEUDO_ACCOUNTS = {"__DEFAULT__"}

# docker exec and ssh sessions may emit terminal control sequences around sacli output
ANSI_ESCAPE_RE = re.compile(r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]")

# VPNStatus client_list_header column names
COL_USERNAME = "Username"
COL_COMMON_NAME = "Common Name"
COL_REAL_ADDRESS = "Real Address"
COL_VIRTUAL_ADDRESS = "Virtual Address"
COL_CONNECTED_SINCE = "Connected Since"
COL_CONNECTED_SINCE_EPOCH = "Connected Since (time_t)"
COL_BYTES_SENT = "Bytes Sent"
COL_BYTES_RECEIVED = "Bytes Received"
