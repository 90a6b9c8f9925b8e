"""
Agentic Relay for Copilot Studio agents

This package relays Teams chat messages and Agent 365 notifications to a
Copilot Studio agent and sends the agent's replies back to the channel.
"""

__version__ = "1.0.0"
__author__ = "Agentic Relay Team"
