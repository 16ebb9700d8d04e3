from resawod.cli import main

main()
