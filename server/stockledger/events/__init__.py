from stockledger.events.dispatcher import dispatch

__all__ = ["dispatch"]
