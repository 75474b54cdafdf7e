"""Command-line interface for receiptwright.

Usage:
    receiptwright extract <text-file>
    receiptwright validate <json-file>
    receiptwright scan <image>
    receiptwright run <message>
    receiptwright serve [--host] [--port]
"""
