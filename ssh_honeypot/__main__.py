from ssh_honeypot.start import main

main()
