"""SAP BusinessObjects REST client.

Client library for the SAP BusinessObjects RESTful web services: session
log-on/log-off, document, schedule, connection, universe and folder
listings flattened into tables, and spreadsheet uploads.
"""

__version__ = "0.1.0"
