"""Run the dialect proxy: ``python proxy.py`` (see configs/config_default.yaml)."""

from dialect_proxy.main import main

if __name__ == "__main__":
    main()
