"""Server side of the document store: persistence and snapshot fan-out.

HTTP routes and socket handlers import from here, keeping transport concerns
apart from how documents are stored and broadcast.
"""
