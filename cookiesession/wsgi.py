#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
	WSGI entry point for the cookiesession Flask application.
	A WSGI server (gunicorn, mod_wsgi) imports this file and serves
	`application`, the Flask app returned by create_app().
"""

from cookiesession.server import create_app

# WSGI servers look up this symbol
application = create_app()
