from accept_airplay.cli import main

main()
