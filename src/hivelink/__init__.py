"""HiveLink - マルチエージェント協調プロトコル"""

__version__ = "0.1.0"
