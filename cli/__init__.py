"""
MDIB History CLI - Offline reconstruction of captured MDIB histories

Commands:
- mdib-history sessions - List sequence ids in the archive
- mdib-history replay - Replay the MDIB history of a sequence id
- mdib-history reports - List archived reports of a sequence id
- mdib-history verify - Verify the archive hash chain
"""

__version__ = "0.1.0"
