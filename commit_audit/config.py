import os
from dotenv import load_dotenv

load_dotenv()

def get_env_for_chain(base_key: str, chain_id: str):
    """
    Prefer CHAIN_ID-suffixed env (e.g. RPC_URL_1) over generic (RPC_URL).
    Return None if neither is set.
    """
    return os.getenv(f"{base_key}_{chain_id}") or os.getenv(base_key)

def _int_or_none(value):
    if value is None or value.strip() == "":
        return None
    return int(value)

# Select network (string, e.g. "1", "8453", "11155111")
CHAIN_ID = os.getenv("CHAIN_ID", "1").strip()

# Node endpoint and audited contract. Required, but checked by the CLI rather than here.
RPC_URL = get_env_for_chain("RPC_URL", CHAIN_ID)
CONTRACT_ADDRESS = get_env_for_chain("CONTRACT_ADDRESS", CHAIN_ID)

# Base slot of the commitments mapping in the deployed contract
COMMITMENTS_SLOT = int(get_env_for_chain("COMMITMENTS_SLOT", CHAIN_ID) or 15)

# Optional eth_getLogs window; None = one request for the whole range
LOG_CHUNK_SIZE = _int_or_none(get_env_for_chain("LOG_CHUNK_SIZE", CHAIN_ID))

# "rpc" = plain JSON-RPC over HTTP, "cast" = shell out to Foundry's cast
RPC_BACKEND = os.getenv("RPC_BACKEND", "rpc").strip().lower()
CAST_BINARY = os.getenv("CAST_BINARY", "cast")

# Retry policy for remote calls
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "10"))
RATE_LIMIT_DELAY = float(os.getenv("RATE_LIMIT_DELAY", "120"))
BASE_RETRY_DELAY = float(os.getenv("BASE_RETRY_DELAY", "10"))
