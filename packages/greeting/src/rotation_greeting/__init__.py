"""Greeting: the one workflow this worker hosts.

- GreetSomeone: logs the name it was started with and returns a greeting.
"""
