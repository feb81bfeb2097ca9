"""Run the addon-deploy command line tool."""

from addon_deploy.tool.addon_deploy import main

if __name__ == "__main__":
    main()
