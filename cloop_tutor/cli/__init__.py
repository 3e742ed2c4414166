"""
Command line interface for cloop-tutor.

Usage:
    cloop-tutor run topic.json --user alice
    cloop-tutor config
"""
