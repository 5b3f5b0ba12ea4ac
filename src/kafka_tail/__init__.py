"""
kafka_tail: consume every partition of a Kafka topic to the terminal.

Modules:
    offsets.py    - Start offset resolution (oldest, newest, follow)
    broker.py     - Broker client interface and aiokafka implementation
    decoding.py   - Payload, key and header decoding
    sink.py       - Non-interleaving stderr/stdout output
    workers/      - One fetch loop per partition
    consume.py    - Orchestration of the above
"""

__version__ = "0.1.0"
