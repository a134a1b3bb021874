from myprs.cli import main

if __name__ == "__main__":
    # Development entry point: `python main.py`; installed entry point is `myprs`.
    main()
