"""
Helpers shared by the jobsync test suite and by tests of code built on jobsync
"""
