"""
Run one fetch cycle from the command line and print the dataset as JSON.

Usage:
    tokenpulse-cycle --api-base http://localhost:3000/api/llama --tokens aave,maker
"""

import json
import logging
import random
import sys

from config import get_config, local_api_base
from .llama_client import LlamaClient
from .orchestrator import CycleError, PredictionOrchestrator

logger = logging.getLogger(__name__)

def main(argv=None) -> int:
    """Main cycle function."""
    import argparse

    config_class = get_config()

    parser = argparse.ArgumentParser(description='Run one TokenPulse prediction cycle')
    parser.add_argument('--api-base', default=config_class.LLAMA_API_BASE or local_api_base(
                            config_class.PORT, config_class.PROXY_PREFIX),
                        help='Gateway URL including the proxy prefix')
    parser.add_argument('--model', default=config_class.LLM_MODEL,
                        help='Model identifier')
    parser.add_argument('--tokens', default=','.join(config_class.TOKENS),
                        help='Comma separated token identifiers')
    parser.add_argument('--timeout', type=float, default=config_class.UPSTREAM_TIMEOUT,
                        help='Per-call timeout in seconds')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for synthetic prices and fallbacks')
    parser.add_argument('--indent', type=int, default=2,
                        help='JSON indentation')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    tokens = [token.strip() for token in args.tokens.split(',') if token.strip()]
    if not tokens:
        parser.error('at least one token is required')

    client = LlamaClient(args.api_base, model=args.model, timeout=args.timeout)
    try:
        orchestrator = PredictionOrchestrator(client, tokens, rng=random.Random(args.seed))
    except ValueError as e:
        parser.error(str(e))

    try:
        dataset = orchestrator.run_cycle()
    except CycleError as e:
        logger.error(f"Cycle failed: {e}")
        return 1
    finally:
        client.close()

    json.dump(dataset.to_dict(), sys.stdout, indent=args.indent)
    sys.stdout.write('\n')
    return 0

if __name__ == '__main__':
    sys.exit(main())
