from wabridge.bridge import main

main()
