# permavault_core/constants.py
# Metadata keys are the wire format shared with the storage gateway and with
# records already on the network. Do not rename.

# --- encryption envelope ---
ENCRYPTED = "Encrypted"
ENCRYPTION_METHOD = "Encryption-Method"
SALT = "Salt"
IV = "IV"
AUTH_TAG = "Auth-Tag"

SUPPORTED_METHOD = "AES-256-CBC"
SALT_BYTES = 16
IV_BYTES = 16
KEY_BYTES = 32

# scrypt cost, fixed so existing uploads stay decryptable
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

MAC_INFO = b"permavault-mac-v1"

# --- access policy ---
DATA_CONTRACT = "Data-Contract"
ACCESS_CONTROL = "Access-Control"
VALID_FROM = "Valid-From"
VALID_UNTIL = "Valid-Until"
REQUIRED_BALANCE = "Required-Balance"
ALLOWED_USERS = "Allowed-Users"
MAX_DOWNLOADS = "Max-Downloads"

ALLOWED_USERS_SEP = ","

# --- lifecycle annotations ---
DELETED = "Deleted"
DELETED_AT = "Deleted-At"
PERMANENT = "Permanent"
DELETED_BY = "Deleted-By"
RESTORED = "Restored"
RESTORED_AT = "Restored-At"
RESTORED_BY = "Restored-By"
SHARE_REVOKED = "Share-Revoked"
REVOKED_AT = "Revoked-At"
REVOKED_USER = "Revoked-User"
REVOKE_ALL = "Revoke-All"
ROLLBACK_TO = "Rollback-To"
ROLLBACK_CREATED_AT = "Rollback-Created-At"
ORIGINAL_TRANSACTION = "Original-Transaction"
BACKUP_OF = "Backup-Of"
BACKUP_CREATED_AT = "Backup-Created-At"
VERSION = "Version"
IS_VERSION = "Is-Version"

# --- generic upload tags ---
CONTENT_TYPE = "Content-Type"
UPLOAD_TIMESTAMP = "Upload-Timestamp"

DEFAULT_CONTENT_TYPE = "application/octet-stream"
TRUE = "true"
FALSE = "false"
