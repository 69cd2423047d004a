"""
classmarket - Classroom Market Simulation Engine

Scheduled market-simulation and trade-settlement engine for a classroom
economy. Ingests reference prices and exchange rates, injects economic
events into class ledgers, settles trades and maintains a read-optimized
market snapshot.
"""

__version__ = "0.1.0"
__author__ = "classmarket Team"
