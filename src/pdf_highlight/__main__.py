"""Allow running as: python -m pdf_highlight"""


def _main() -> None:
    from .cli import main

    main()


if __name__ == "__main__":
    _main()
