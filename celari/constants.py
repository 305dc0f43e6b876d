#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# System constants.
#

# Relying party we register passkeys under
# - the origin must be a web origin whose host is the RP id (or a subdomain)
RP_ID = 'celari.wallet'
RP_NAME = 'Celari Wallet'
ORIGIN = 'https://celari.wallet'

DEFAULT_DISPLAY_NAME = 'Celari User'

# COSE algorithm identifier for ES256 (ECDSA w/ SHA-256 on P-256)
COSE_ALG_ES256 = -7
COSE_KTY_EC2 = 2
COSE_CRV_P256 = 1

# how long the authenticator may wait for the user (milliseconds)
CEREMONY_TIMEOUT_MS = 60_000

# random challenge / user handle sizes (bytes)
CHALLENGE_SIZE = 32
USER_ID_SIZE = 32

# authenticatorData flag bits
FLAG_UP = 0x01          # user present
FLAG_UV = 0x04          # user verified
FLAG_BE = 0x08          # backup eligible
FLAG_BS = 0x10          # backed up
FLAG_AT = 0x40          # attested credential data included
FLAG_ED = 0x80          # extension data included

# P-256 sizes (bytes)
COORD_SIZE = 32
SIG_SIZE = 64
HASH_SIZE = 32

# the account contract verifies exactly one field per signature byte
NUM_WITNESS_FIELDS = SIG_SIZE

# DER tags
DER_SEQUENCE = 0x30
DER_INTEGER = 0x02

# uncompressed EC point prefix (SEC1)
EC_POINT_UNCOMPRESSED = 0x04

# Backup file format. Changing any of these needs a new BACKUP_VERSION.
BACKUP_VERSION = 1
PBKDF2_ITERATIONS = 600_000
BACKUP_KEY_SIZE = 32
BACKUP_SALT_SIZE = 16
BACKUP_IV_SIZE = 12
GCM_TAG_SIZE = 16

# shortest password the CLI will accept for a new backup
MIN_BACKUP_PASSWORD = 8

# account variants
ACCOUNT_PASSKEY = 'passkey'
ACCOUNT_DEMO = 'demo'
ACCOUNT_TYPES = (ACCOUNT_PASSKEY, ACCOUNT_DEMO)

# storage keys
KEYCHAIN_SERVICE = 'com.celari.wallet'
CREDENTIALS_KEY = 'celari_passkey_credentials'
ACCOUNT_KEYS_PREFIX = 'acct_'

# EOF
