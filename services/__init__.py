"""
Services shared by the web app and the command line.
"""
