"""Allow running the service as a module: python -m fulfillment."""

from fulfillment.runner import main

if __name__ == "__main__":
    main()
