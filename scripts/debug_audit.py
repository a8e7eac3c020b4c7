# scripts/debug_audit.py
import sys
from pathlib import Path
import logging

# Make repo root importable so "import commit_audit" works
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from commit_audit.config import RPC_URL, CONTRACT_ADDRESS, COMMITMENTS_SLOT, LOG_CHUNK_SIZE, RPC_BACKEND
from commit_audit.main import build_node, run_audit
from commit_audit.storage import check_commitment_pending
from commit_audit.status import classify

def main():
    logging.basicConfig(level=logging.DEBUG, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    node = build_node(RPC_URL, RPC_BACKEND)
    address = CONTRACT_ADDRESS.lower()
    print("Head block:", node.latest_block())

    # Single key: debug_audit.py <user> <itemId>
    if len(sys.argv) == 3:
        user, item_id = sys.argv[1].lower(), sys.argv[2]
        print("Storage:", check_commitment_pending(node, address, user, item_id, COMMITMENTS_SLOT))
        print("Status:", classify(node, address, user, item_id))
        return

    result = run_audit(node, address, chunk_size=LOG_CHUNK_SIZE, base_slot=COMMITMENTS_SLOT)
    print(result.report.to_json())
    print("Next --from-block:", result.next_from_block)

if __name__ == "__main__":
    main()
