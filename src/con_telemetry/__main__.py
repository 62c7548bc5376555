from con_telemetry.cli import main

if __name__ == "__main__":
    main()
