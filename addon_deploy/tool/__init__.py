"""The addon-deploy command line tool."""
