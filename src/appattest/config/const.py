from __future__ import annotations

# storage key of the verified key identifier (shared with the iOS client)
KEY_ID_STORAGE_KEY = "appAttestKeyId"

KEYRING_SERVICE_NAME = "appattest/key-id"

CONFIG_FILENAME = "appattest.yaml"
STATE_FILENAME = "key-id.json"
LOG_FILENAME = "appattest.log"

DEFAULT_BASE_DIR = "~/.appattest"
DEFAULT_TIMEOUT = 15.0
DEFAULT_SUBJECT_ID = "User123"
DEFAULT_CLIENT_ID = "1234"

CLIENT_DATA_HASH_SIZE = 32
