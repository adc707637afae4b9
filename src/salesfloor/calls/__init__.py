"""
Call lifecycle: admission control, start/end bookkeeping and call logs.
"""
