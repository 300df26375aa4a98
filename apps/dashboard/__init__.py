"""
Futures dashboard service: rankings, batch trading and position streaming
"""
