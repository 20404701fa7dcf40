from sage_mcp.mcp_server import main

main()
