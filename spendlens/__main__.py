from spendlens.cli import main

main()
