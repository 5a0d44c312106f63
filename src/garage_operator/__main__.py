"""Allow running the operator with ``python -m garage_operator``."""

from garage_operator.operator import main

if __name__ == "__main__":
    main()
