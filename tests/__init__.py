"""cloudtables test suite.

Unit tests live in tests/unit/ and run against in-memory fakes
(tests/fakes.py); no AWS credentials are needed.
"""
