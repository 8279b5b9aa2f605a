"""
Event source constants.

Contains the ERC-20 Transfer ABI and its topic.
"""

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# ERC-20 Transfer has 3 topics (signature, from, to); ERC-721 has 4
ERC20_TRANSFER_TOPIC_COUNT = 3

# Minimal ERC20 ABI for Transfer events
ERC20_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    }
]

# Pending deliveries buffered per subscription before the poller blocks
SUBSCRIPTION_QUEUE_SIZE = 16
