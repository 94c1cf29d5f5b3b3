from reminder_bell.jobs.worker import main

main()
