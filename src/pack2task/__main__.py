from pack2task.cli import main

main()
